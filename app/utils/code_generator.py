"""
Cryptographically secure id generation for pastes and users.
"""
import secrets
import string

# URL-safe alphabet, same character set as nanoid.
ALPHABET = string.ascii_letters + string.digits + "_-"


def generate_id(length: int = 10) -> str:
    """
    Generate a random URL-safe identifier.

    Uses the `secrets` module so share links cannot be guessed.

    Returns:
        str: An id like "V1StGXR8_Z"
    """
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


async def ensure_unique_id(exists, length: int = 10) -> str:
    """
    Generate an id and verify it is not already taken.

    Args:
        exists: Coroutine function returning True when an id is in use

    Returns:
        str: A unique id not already in use
    """
    for _ in range(10):  # Max 10 attempts
        candidate = generate_id(length)
        if not await exists(candidate):
            return candidate
    raise RuntimeError("Failed to generate unique id after 10 attempts")
