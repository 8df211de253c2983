from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from academy_office.domain.pricing import is_billable_name, normalize_name

# Legacy academy names that were later folded into another academy as a level.
ACADEMY_ALIASES: dict[str, tuple[str, str]] = {
    "korean conversation": ("Korean Language", "Conversation"),
}


@dataclass(frozen=True)
class PeriodSlot:
    academy: str | None
    level: str | None = None


@dataclass(frozen=True)
class TwoSlotSelection:
    first_period: PeriodSlot | None
    second_period: PeriodSlot | None


@dataclass(frozen=True)
class ListSelection:
    selected_academies: tuple[PeriodSlot, ...]


Selection = TwoSlotSelection | ListSelection


@dataclass(frozen=True)
class EnrollmentSelection:
    academy_name: str
    level_name: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return normalize_name(self.academy_name), normalize_name(self.level_name)


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def _slot_from_raw(raw: Any) -> PeriodSlot | None:
    if not isinstance(raw, Mapping):
        return None
    academy = _clean(raw.get("academy") or raw.get("academyName") or raw.get("name"))
    if academy is None:
        return None
    return PeriodSlot(academy=academy, level=_clean(raw.get("level") or raw.get("levelName")))


def parse_selection(raw: Mapping[str, Any]) -> Selection:
    """Build the selection variant a registration document carries.

    Documents with a ``selectedAcademies`` list use the unbounded form; all
    others are read as the fixed ``firstPeriod``/``secondPeriod`` form.
    """
    selected = raw.get("selectedAcademies")
    if isinstance(selected, Sequence) and not isinstance(selected, (str, bytes)):
        slots = tuple(slot for slot in (_slot_from_raw(item) for item in selected) if slot is not None)
        return ListSelection(selected_academies=slots)
    return TwoSlotSelection(
        first_period=_slot_from_raw(raw.get("firstPeriod")),
        second_period=_slot_from_raw(raw.get("secondPeriod")),
    )


def _apply_alias(slot: PeriodSlot) -> PeriodSlot:
    alias = ACADEMY_ALIASES.get(normalize_name(slot.academy))
    if alias is None:
        return slot
    academy, level = alias
    return PeriodSlot(academy=academy, level=level)


def _slots(selection: Selection) -> list[PeriodSlot]:
    if isinstance(selection, ListSelection):
        return list(selection.selected_academies)
    slots: list[PeriodSlot] = []
    first = selection.first_period
    second = selection.second_period
    if first is not None:
        slots.append(first)
    if second is not None:
        if first is None or normalize_name(second.academy) != normalize_name(first.academy):
            slots.append(second)
    return slots


def normalize_enrollments(selection: Selection, *, apply_aliases: bool = False) -> list[EnrollmentSelection]:
    enrollments: list[EnrollmentSelection] = []
    seen: set[tuple[str, str]] = set()
    for slot in _slots(selection):
        if not is_billable_name(slot.academy):
            continue
        if apply_aliases:
            slot = _apply_alias(slot)
        level = slot.level if is_billable_name(slot.level) else None
        enrollment = EnrollmentSelection(academy_name=slot.academy, level_name=level)
        if enrollment.key in seen:
            continue
        seen.add(enrollment.key)
        enrollments.append(enrollment)
    return enrollments
