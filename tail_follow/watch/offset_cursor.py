from dataclasses import dataclass


@dataclass
class OffsetCursor:
    """
    Bytes of the watched file already scanned and accounted for.

    The offset only moves forward, and only after a scan finished successfully.
    """

    offset: int = 0
    scans: int = 0

    def advance(self, new_offset: int) -> None:
        n = int(new_offset)
        if n < self.offset:
            raise ValueError(f"offset cannot move backward ({self.offset} -> {n})")
        self.offset = n
        self.scans += 1
