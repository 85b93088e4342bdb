# gamedeals/models/page.py

"""One slice of a paginated deals listing."""

from dataclasses import dataclass

from gamedeals.models.deal import Deal


@dataclass(frozen=True)
class Page:
    """Deals returned for one (filter, offset) request.

    ``next_offset`` is the cursor of the immediately following page and
    is derived from the raw upstream list, before local filtering.
    """

    deals: tuple[Deal, ...]
    offset: int
    next_offset: int
    has_more: bool

    def __post_init__(self) -> None:
        if self.offset < 0 or self.next_offset < self.offset:
            raise ValueError(
                f"Invalid page cursor: offset={self.offset}, "
                f"next_offset={self.next_offset}"
            )

    def __len__(self) -> int:
        return len(self.deals)
