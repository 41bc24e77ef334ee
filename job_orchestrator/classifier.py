from typing import Any, Sequence

# Lexical cues that the user is sequencing several actions
MULTI_STEP_PHRASES = (
    "and then",
    "after that",
    "next",
    "followed by",
    "and get me",
    "then draft",
    "then send",
    "analyze and",
    "find and",
    "get me the",
)

# Counted as substrings, so "getting" or "forget" count as "get"
ACTION_VERBS = ("find", "get", "analyze", "draft", "send")

# Phrases that historically imply discover+enrich or analyze+act
COMPOUND_INTENT_PHRASES = (
    "point of contact",
    "contact info",
    "owner email",
    "decision maker",
    "analyze",
    "compare",
    "rank",
    "draft email",
    "outreach",
)


def is_complex(user_message: str, prior_tool_results: Sequence[Any] = ()) -> bool:
    """True when the request needs a multi-step autonomous job rather than one tool call."""
    message = (user_message or "").lower()

    if any(phrase in message for phrase in MULTI_STEP_PHRASES):
        return True

    if sum(message.count(verb) for verb in ACTION_VERBS) >= 2:
        return True

    if any(phrase in message for phrase in COMPOUND_INTENT_PHRASES):
        return True

    return len(prior_tool_results or ()) > 1
