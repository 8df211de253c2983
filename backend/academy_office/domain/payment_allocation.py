from collections.abc import Sequence


def _share(amount: int, balance: int, total_debt: int) -> int:
    # amount * balance / total_debt rounded half-up, all operands non-negative
    return (2 * amount * balance + total_debt) // (2 * total_debt)


def allocate_proportionally(amount: int, balances: Sequence[int]) -> list[int]:
    """Split ``amount`` across ``balances`` in proportion to each balance.

    The last open balance absorbs the rounding remainder; no allocation ever
    exceeds its balance and allocations always sum to ``amount``. Raises
    ``ValueError`` when ``amount`` is negative or exceeds the total debt.
    """
    open_balances = [max(balance, 0) for balance in balances]
    total_debt = sum(open_balances)
    if amount < 0:
        raise ValueError("amount must not be negative")
    if amount > total_debt:
        raise ValueError("amount exceeds total debt")
    allocations = [0] * len(open_balances)
    if amount == 0:
        return allocations

    open_indexes = [index for index, balance in enumerate(open_balances) if balance > 0]
    remaining = amount
    for position, index in enumerate(open_indexes):
        balance = open_balances[index]
        if position == len(open_indexes) - 1:
            share = remaining
        else:
            share = _share(amount, balance, total_debt)
        pay = min(remaining, share, balance)
        allocations[index] = pay
        remaining -= pay

    for index in open_indexes:
        if remaining == 0:
            break
        extra = min(open_balances[index] - allocations[index], remaining)
        allocations[index] += extra
        remaining -= extra
    return allocations
