from typing import Iterable, Optional, Tuple

from shipping_analytics.core.fields import Record


class ShipmentStore:
    """
    Ordered, read-only sequence of the decoded records of one dataset.

    Records keep file order. The sequence is only ever swapped as a whole.
    """

    def __init__(self, records: Optional[Iterable[Record]] = None):
        self._records: Tuple[Record, ...] = ()
        self._loaded = False
        if records is not None:
            self.replace(records)

    def replace(self, records: Iterable[Record]) -> None:
        # Materialize first so a failing iterator leaves the old sequence intact.
        materialized = tuple(records)
        self._records = materialized
        self._loaded = True

    def all(self) -> Tuple[Record, ...]:
        return self._records

    def count(self) -> int:
        return len(self._records)

    @property
    def loaded(self) -> bool:
        return self._loaded

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)
