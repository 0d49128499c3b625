"""Synthetic document generation.

Documents are produced lazily from a seeded Faker instance so the same seed
always replays the same stream. Text is drawn from a small fixed vocabulary,
which guarantees hits for the keyword benchmarks; tags come from another
fixed vocabulary so both tag hits and tag misses are predictable.

Variants:
    flat: title and content only
    structured: adds a tag set and a nested attribute map
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, Optional

from faker import Faker

from crossbench.constants import CATEGORIES, REGIONS, TAG_VOCABULARY, TEXT_VOCABULARY, SchemaVariant
from crossbench.logger import Logger
from crossbench.schema import SyntheticDocument

TITLE_WORDS = (4, 12)
CONTENT_SENTENCES = (3, 6)
MAX_TAGS = 4
SCORE_RANGE = (0, 1000)
CREATED_AT_SPREAD = timedelta(days=365)

DocumentFactory = Callable[[], Iterator[SyntheticDocument]]


def draw_seed() -> int:
    """Pick a fresh seed for an unseeded run."""
    return random.SystemRandom().randrange(2**31)


class DocumentGenerator:
    """Replayable source of SyntheticDocument streams.

    Each call to `generate` returns a new iterator that yields exactly the same
    documents as every other call, so several consumers can each read their own
    pass without sharing or buffering the stream.

    Example:
        >>> gen = DocumentGenerator(SchemaVariant.STRUCTURED, seed=42)
        >>> docs = list(gen.generate(3))
        >>> [d.id for d in docs]
        [1, 2, 3]
    """

    def __init__(
        self,
        variant: SchemaVariant | str = SchemaVariant.FLAT,
        seed: Optional[int] = None,
        optional_absence_rate: float = 0.1,
        anchor: Optional[datetime] = None,
    ) -> None:
        if not 0.0 <= optional_absence_rate <= 1.0:
            raise ValueError(f"optional_absence_rate must be within [0, 1], got {optional_absence_rate}")
        self.variant = SchemaVariant(variant)
        self.seed = seed if seed is not None else draw_seed()
        self.optional_absence_rate = optional_absence_rate
        self.anchor = anchor or datetime.now(timezone.utc).replace(microsecond=0)
        self.logger = Logger(self.__class__.__name__)

    def generate(self, count: int) -> Iterator[SyntheticDocument]:
        """Yield `count` documents with ids 1..count.

        Raises:
            ValueError: If count is negative
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        return self._stream(count)

    def factory(self, count: int) -> DocumentFactory:
        """Bind `count` and return a zero-argument callable producing fresh streams."""
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        return lambda: self._stream(count)

    def _stream(self, count: int) -> Iterator[SyntheticDocument]:
        fake = Faker()
        fake.seed_instance(self.seed)
        rng = random.Random(self.seed)
        self.logger.debug("Generating %d %s documents (seed=%d)", count, self.variant.value, self.seed)
        for doc_id in range(1, count + 1):
            yield self._build(doc_id, fake, rng)

    def _build(self, doc_id: int, fake: Faker, rng: random.Random) -> SyntheticDocument:
        title = fake.sentence(
            nb_words=rng.randint(*TITLE_WORDS),
            variable_nb_words=False,
            ext_word_list=TEXT_VOCABULARY,
        )
        content = fake.paragraph(
            nb_sentences=rng.randint(*CONTENT_SENTENCES),
            variable_nb_sentences=False,
            ext_word_list=TEXT_VOCABULARY,
        )
        created_at = self.anchor - timedelta(seconds=rng.randrange(int(CREATED_AT_SPREAD.total_seconds())))
        if self.variant == SchemaVariant.FLAT:
            return SyntheticDocument(id=doc_id, title=title, content=content, created_at=created_at)
        return SyntheticDocument(
            id=doc_id,
            title=title,
            content=content,
            tags=tuple(rng.sample(TAG_VOCABULARY, rng.randint(1, MAX_TAGS))),
            attributes=self._attributes(rng),
            created_at=created_at,
        )

    def _attributes(self, rng: random.Random) -> Dict[str, Any]:
        attributes: Dict[str, Any] = {
            "category": rng.choice(CATEGORIES),
            "priority": rng.randint(0, 1000),
            "active": rng.random() < 0.5,
            "metrics": {
                "score": rng.randint(*SCORE_RANGE),
                "region": rng.choice(REGIONS),
            },
        }
        # Always draw so the stream stays aligned whether or not the key is kept.
        discount = round(rng.uniform(0.0, 0.5), 2)
        if rng.random() >= self.optional_absence_rate:
            attributes["discount"] = discount
        return attributes


def generate(
    count: int,
    variant: SchemaVariant | str = SchemaVariant.FLAT,
    seed: Optional[int] = None,
    optional_absence_rate: float = 0.1,
) -> Iterator[SyntheticDocument]:
    """Shortcut for `DocumentGenerator(variant, seed, ...).generate(count)`."""
    return DocumentGenerator(variant, seed=seed, optional_absence_rate=optional_absence_rate).generate(count)
