"""Book recommendation wall.

A fixed grid of slots. Seeding places one resolved book, locked, at the
center; populating asks the generative service for exactly as many
recommendations as there are empty slots and resolves each one against the
bibliographic service into an empty slot chosen before resolution started.

Grid writes share the graph store's write lock. Every seed or reset starts a
new epoch and results from an older epoch are dropped. A resolved book is
only written if its slot is still empty and its "title by author" identity
(compared case-insensitively) is neither on the wall nor dismissed.
"""

import asyncio
import logging
from typing import List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from storylines.core import constants
from storylines.core.errors import InvalidInputError, StorylinesError
from storylines.graph.models import BookData, GridSlot, SlotStatus
from storylines.graph.store import GraphStore
from storylines.providers.base import BibliographicProvider, GenerationRequest, GenerativeProvider, OutputMode
from storylines.providers.openlibrary_provider import UNKNOWN_AUTHOR
from storylines.services.prompts import RecommendationSchema, RecommendationsSchema, create_book_grid_prompt

logger = logging.getLogger(__name__)


class BookGrid:
    """Recommendation wall state and operations."""

    def __init__(
        self,
        store: GraphStore,
        library: BibliographicProvider,
        generator: GenerativeProvider,
        model: str = "gemini-2.5-pro",
        size: Optional[int] = None,
        center: Optional[int] = None,
    ):
        self.store = store
        self.library = library
        self.generator = generator
        self.model = model
        self.size = constants.GRID_SIZE if size is None else size
        self.center = constants.GRID_CENTER_INDEX if center is None else center
        if not 0 <= self.center < self.size:
            raise ValueError("center must be a valid slot index")

        self._lock = store.write_lock
        self._slots: List[GridSlot] = self._empty_slots()
        self._dismissed: List[str] = []
        self._epoch = 0
        self._in_flight = 0
        self.is_seeded = False

    def _empty_slots(self) -> List[GridSlot]:
        return [GridSlot(index=i) for i in range(self.size)]

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def slots(self) -> Tuple[GridSlot, ...]:
        return tuple(self._slots)

    @property
    def dismissed(self) -> Tuple[str, ...]:
        return tuple(self._dismissed)

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    def _occupied_keys(self) -> Set[str]:
        return {slot.book.identity_key for slot in self._slots if slot.book is not None}

    def _dismissed_keys(self) -> Set[str]:
        return {identity.casefold() for identity in self._dismissed}

    def _check_index(self, index: int) -> GridSlot:
        if not isinstance(index, int) or not 0 <= index < self.size:
            raise InvalidInputError("index", f"must be between 0 and {self.size - 1}")
        return self._slots[index]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def reset(self) -> None:
        async with self._lock:
            self._epoch += 1
            self._slots = self._empty_slots()
            self._dismissed.clear()
            self.is_seeded = False

    async def seed(self, query: str) -> bool:
        """Start a new wall around the best match for ``query``.

        Returns:
            True if a seed book was found and placed
        """
        async with self._lock:
            self._epoch += 1
            epoch = self._epoch
            self._slots = self._empty_slots()
            self._dismissed.clear()
            self.is_seeded = False

        self._in_flight += 1
        try:
            try:
                book = await self.library.find_book_for_grid(query)
            except StorylinesError as e:
                logger.error("Seed lookup failed for %r: %s", query, e)
                book = None

            if book is None:
                logger.warning("Seed book not found for %r", query)
                return False

            async with self._lock:
                if epoch != self._epoch:
                    return False
                self._slots[self.center] = GridSlot(index=self.center, status=SlotStatus.LOCKED, book=book)
                self.is_seeded = True
        finally:
            self._in_flight -= 1

        logger.info("Seeded book wall with %s", book.identity)
        await self.populate()
        return True

    async def populate(self) -> int:
        """Fill empty slots with recommendations. Returns the number of slots filled."""
        async with self._lock:
            epoch = self._epoch
            locked = [slot.book for slot in self._slots if slot.status == SlotStatus.LOCKED and slot.book]
            excluded = [slot.book.identity for slot in self._slots if slot.book is not None]
            excluded.extend(self._dismissed)
            empty_indices = [slot.index for slot in self._slots if slot.is_empty]

        if not locked or not empty_indices:
            return 0

        self._in_flight += 1
        try:
            request = GenerationRequest(
                prompt=create_book_grid_prompt(locked, excluded, len(empty_indices)),
                model=self.model,
                output_mode=OutputMode.JSON,
                schema=RecommendationsSchema,
            )
            try:
                data = await self.generator.generate_json(request)
                recommendations = RecommendationsSchema.model_validate(data).recommendations
            except (StorylinesError, PydanticValidationError) as e:
                logger.error("Failed to populate grid suggestions: %s", e)
                return 0

            if epoch != self._epoch:
                return 0

            assignments = list(zip(empty_indices, recommendations))
            results = await asyncio.gather(*(
                self._fill_slot(index, recommendation, epoch)
                for index, recommendation in assignments
            ))
            filled = sum(1 for placed in results if placed)
            logger.debug("Filled %d of %d empty slots", filled, len(empty_indices))
            return filled
        finally:
            self._in_flight -= 1

    async def _fill_slot(self, index: int, recommendation: RecommendationSchema, epoch: int) -> bool:
        try:
            book = await self.library.find_book_for_grid(recommendation.title, recommendation.author)
        except StorylinesError as e:
            logger.warning("Could not resolve recommendation %r: %s", recommendation.title, e)
            return False
        if book is None:
            return False

        async with self._lock:
            if epoch != self._epoch:
                return False
            return self._place(index, book, SlotStatus.SUGGESTED)

    def _place(self, index: int, book: BookData, status: SlotStatus) -> bool:
        # Caller holds the lock
        if not self._slots[index].is_empty:
            return False
        key = book.identity_key
        if key in self._occupied_keys() or key in self._dismissed_keys():
            return False
        self._slots[index] = GridSlot(index=index, status=status, book=book)
        return True

    async def lock(self, index: int) -> None:
        """Keep a suggested book on the wall, then refill the remaining slots.

        Raises:
            InvalidInputError: If ``index`` is out of range or the slot is empty
        """
        async with self._lock:
            slot = self._check_index(index)
            if slot.book is None:
                raise InvalidInputError("index", f"slot {index} is empty")
            self._slots[index] = GridSlot(index=index, status=SlotStatus.LOCKED, book=slot.book)
        await self.populate()

    async def dismiss(self, index: int) -> None:
        """Remove a book from the wall for good, then refill.

        Raises:
            InvalidInputError: If ``index`` is out of range
        """
        async with self._lock:
            slot = self._check_index(index)
            if slot.book is None:
                return
            self._dismissed.append(slot.book.identity)
            self._slots[index] = GridSlot(index=index)
        await self.populate()

    async def add_node(self, node_id: str) -> bool:
        """Place a book node from the graph on the wall, locked.

        The author comes from a connected author node. An unseeded wall gets
        the book at its center.

        Returns:
            True if the book was placed
        """
        node = self.store.get_node(node_id)
        if node is None or node.type != "book":
            logger.error("Node %s is not a book or doesn't exist", node_id)
            return False

        author = UNKNOWN_AUTHOR
        for neighbor_id in self.store.neighbors(node_id):
            neighbor = self.store.get_node(neighbor_id)
            if neighbor is not None and neighbor.type == "author":
                author = neighbor.label
                break

        book = BookData(
            title=node.label,
            author=author,
            cover_url=node.image_url,
            external_key=node.external_key,
        )

        async with self._lock:
            for slot in self._slots:
                if slot.book is None:
                    continue
                same_key = book.external_key and slot.book.external_key == book.external_key
                if same_key or slot.book.title.casefold() == book.title.casefold():
                    logger.info("Book %s is already on the wall", book.title)
                    return False

            if not self.is_seeded:
                index = self.center
            else:
                index = next((slot.index for slot in self._slots if slot.is_empty), None)
                if index is None:
                    logger.info("Book wall is full")
                    return False

            # A dismissed book placed by hand is no longer dismissed
            self._dismissed = [d for d in self._dismissed if d.casefold() != book.identity_key]
            placed = self._place(index, book, SlotStatus.LOCKED)
            if placed:
                self.is_seeded = True

        if placed:
            await self.populate()
        return placed
