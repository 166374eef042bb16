import time

import shortuuid

_BATCH_TOKEN_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def generate_batch_number(now_ms: int | None = None) -> str:
    """Display identifier for an inventory batch: ``BATCH-<epoch ms>-<token>``.

    Not a sequence; collisions are only made unlikely by the random token.
    """
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    token = shortuuid.ShortUUID(alphabet=_BATCH_TOKEN_ALPHABET).random(length=4)
    return f"BATCH-{timestamp}-{token}"
