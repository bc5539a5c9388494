"""An opened slide: its tile table, its description and its encoded tile bytes."""

from __future__ import annotations

import copy
import logging
import weakref
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .types import SlideInfo

logger = logging.getLogger(__name__)

DestroyedCallback = Callable[[], None]


@dataclass(frozen=True)
class TileEntry:
    """Location of one encoded tile within the slide's data."""

    offset: int
    size: int


def _run_destroyed(holder: List[Optional[DestroyedCallback]]) -> None:
    callback, holder[0] = holder[0], None
    logger.debug("slide removed")
    if callback is not None:
        callback()


class Slide:
    """A slide held open by the server and shared between client sessions.

    ``layers`` lists, for each resolution layer, the tile entries of that
    layer in tile-index order. The on-destroyed callback runs once, either
    when the slide is closed or when it is garbage collected.
    """

    def __init__(
        self,
        identifier: str,
        data: bytes,
        layers: Iterable[Iterable[TileEntry]],
        info: Optional[SlideInfo] = None,
    ) -> None:
        self.id = identifier
        self._data = bytes(data)
        self._layers: Tuple[Tuple[TileEntry, ...], ...] = tuple(
            tuple(layer) for layer in layers
        )
        self._info = info if info is not None else SlideInfo()
        self._on_destroyed: List[Optional[DestroyedCallback]] = [None]
        self._finalizer = weakref.finalize(self, _run_destroyed, self._on_destroyed)
        logger.debug("slide created %s", identifier)

    @property
    def layers(self) -> Sequence[Sequence[TileEntry]]:
        return self._layers

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def __enter__(self) -> "Slide":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def set_on_destroyed_callback(self, callback: Optional[DestroyedCallback]) -> None:
        """Set the function run once when the slide is closed or collected."""
        self._on_destroyed[0] = callback

    def close(self) -> None:
        """Release the slide, running the on-destroyed callback if not yet run."""
        self._finalizer()

    def get_slide_info(self) -> SlideInfo:
        """Return a copy of the slide's format, encoding, extent and metadata."""
        return copy.deepcopy(self._info)

    def get_tile_entry(self, layer: int, tile_index: int) -> bytes:
        """Return a copy of the encoded bytes of one tile.

        Raises IndexError when the layer or tile lies outside the tile table.
        """
        if not 0 <= layer < len(self._layers):
            raise IndexError("layer in SlideTileReadInfo is out of bounds")
        tiles = self._layers[layer]
        if not 0 <= tile_index < len(tiles):
            raise IndexError("tile in SLideTileReadInfo is out of layer bounds")
        entry = tiles[tile_index]
        end = entry.offset + entry.size
        if entry.offset < 0 or entry.size < 0 or end > len(self._data):
            raise IndexError("tile entry lies outside the slide data")
        return self._data[entry.offset:end]