from __future__ import annotations

import random
import re
from dataclasses import dataclass

MUL = "×"
DIV = "÷"

MAX_DIVIDEND = 99

_TOKEN_RE = re.compile(r"\s*(\d+|[+\-×÷*/])")


@dataclass(frozen=True)
class Expression:
    text: str
    answer: int


def _factor_pairs(target: int) -> list[tuple[int, int]]:
    pairs = []
    i = 2
    while i * i <= target:
        if target % i == 0 and i <= 9 and target // i <= 9:
            pairs.append((i, target // i))
        i += 1
    return pairs


def candidate_expressions(target: int, difficulty: int, rng: random.Random) -> list[str]:
    """
    Arithmetic expressions that evaluate to target.
    Higher difficulties unlock multiplication, division and mixed forms.
    """
    ops: list[str] = []

    if target >= 2:
        a = rng.randint(1, target - 1)
        ops.append(f"{a}+{target - a}")

    b = rng.randint(1, 9)
    ops.append(f"{target + b}-{b}")

    if difficulty > 2:
        for x, y in _factor_pairs(target):
            ops.append(f"{x}{MUL}{y}")

    if difficulty > 3:
        divisor = rng.randint(2, 5)
        if target * divisor <= MAX_DIVIDEND:
            ops.append(f"{target * divisor}{DIV}{divisor}")

    if difficulty > 4:
        a = rng.randint(1, 3)
        b = rng.randint(1, 3)
        c = target - a * b
        if 1 <= c <= 9:
            ops.append(f"{a}{MUL}{b}+{c}")

    return ops


def synthesize_expression(target: int, difficulty: int, rng: random.Random | None = None) -> Expression:
    rng = rng or random.Random()
    ops = candidate_expressions(target, difficulty, rng)
    if not ops:
        return Expression(text=f"{target - 1}+1", answer=target)
    return Expression(text=rng.choice(ops), answer=target)


def _tokenize(text: str) -> list[str]:
    tokens = []
    pos = 0
    stripped = text.rstrip()
    while pos < len(stripped):
        m = _TOKEN_RE.match(stripped, pos)
        if m is None:
            raise ValueError(f"Unexpected character in expression {text!r} at {pos}")
        tokens.append(m.group(1))
        pos = m.end()
    return tokens


def evaluate_expression(text: str) -> int:
    """
    Evaluate an expression made of non-negative integers and + - × ÷.
    Division must be exact.
    """
    tokens = _tokenize(text)
    if not tokens or len(tokens) % 2 == 0:
        raise ValueError(f"Malformed expression: {text!r}")

    # Fold × and ÷ first, then sum the additive terms.
    terms: list[int] = []
    signs: list[int] = [1]
    current = _number(tokens[0], text)
    for i in range(1, len(tokens), 2):
        op, operand = tokens[i], _number(tokens[i + 1], text)
        if op in (MUL, "*"):
            current *= operand
        elif op in (DIV, "/"):
            if operand == 0 or current % operand:
                raise ValueError(f"Inexact division in expression: {text!r}")
            current //= operand
        else:
            terms.append(current)
            signs.append(1 if op == "+" else -1)
            current = operand
    terms.append(current)
    return sum(sign * term for sign, term in zip(signs, terms))


def _number(token: str, text: str) -> int:
    if not token.isdigit():
        raise ValueError(f"Expected a number in expression {text!r}, got {token!r}")
    return int(token)
