import random
import string

_SQL_ALPHABET = "SELECTabc ()'\"-*/\n\t:;WHERE"


def random_lower_string(length: int = 32) -> str:
    return "".join(random.choices(string.ascii_lowercase, k=length))


def random_sql_text(rng: random.Random, length: int = 60) -> str:
    """Noise over SQL punctuation: quotes, comment markers, parentheses."""
    return "".join(rng.choice(_SQL_ALPHABET) for _ in range(length))


def random_balanced_parens(rng: random.Random, pairs: int = 8) -> str:
    """Random well-nested parentheses with identifiers in between."""
    out: list[str] = []
    opened = 0
    remaining = pairs
    while remaining or opened:
        if remaining and (not opened or rng.random() < 0.5):
            out.append("(")
            opened += 1
            remaining -= 1
        else:
            out.append(")")
            opened -= 1
        out.append(rng.choice(["a", " b ", "c=1", " "]))
    return "".join(out)
