"""The two counterparties of a booking."""

from enum import Enum


class Party(str, Enum):
    ARTIST = "artist"
    PROMOTER = "promoter"

    @property
    def other(self) -> "Party":
        return Party.PROMOTER if self is Party.ARTIST else Party.ARTIST
