"""Canonical MQTT topic scheme for BondBot.

Topics are bondbot/{pair_id}/{direction}, where direction names the way a
message travels between the two devices of a pair.
"""

PREFIX = "bondbot"

# Directions
A_TO_B = "A_to_B"
B_TO_A = "B_to_A"
DIRECTIONS = (A_TO_B, B_TO_A)


def subscribe_all(prefix: str = PREFIX) -> str:
    """Wildcard covering every pair in both directions."""
    return f"{prefix}/+/+"


def pair_topic(pair_id: str, direction: str, prefix: str = PREFIX) -> str:
    """Build the topic for one direction of a pair."""
    if direction not in DIRECTIONS:
        raise ValueError(f"Unknown direction: {direction}")
    return f"{prefix}/{pair_id}/{direction}"


def reply_topic(pair_id: str, requester, prefix: str = PREFIX) -> str:
    """Topic that delivers a result to the requesting device.

    A result for A travels B_to_A, a result for B travels A_to_B.
    ``requester`` is a Device or its "A"/"B" tag.
    """
    tag = getattr(requester, "value", requester)
    direction = B_TO_A if tag == "A" else A_TO_B
    return pair_topic(pair_id, direction, prefix)
