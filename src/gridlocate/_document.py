"""Grid documents and their construction from raw documents."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from ._types import TRAINING

if TYPE_CHECKING:
    from ._langmodel import LangModelFactory, UnigramLangModel
    from ._tokenizer import Tokenizer
    from ._types import RawDocument


@dataclass(slots=True, eq=False)
class GridDoc:
    """A document with a language model, ready to be placed or ranked."""

    title: str
    split: str
    coord: Any
    lm: UnigramLangModel
    salience: float | None = None

    @property
    def has_coord(self) -> bool:
        return self.coord is not None

    def __str__(self) -> str:
        loc = f" at {self.coord}" if self.coord is not None else ""
        return f"GridDoc({self.title!r}{loc})"

    def shortstr(self) -> str:
        return self.title


class DocumentFactory:
    """Builds ``GridDoc`` objects, noting training models globally.

    Models noted globally cannot be finished until the global
    distribution is; they are held back and finished by
    ``finish_document_loading``. Models created afterwards are finished
    immediately.
    """

    def __init__(
        self,
        lm_factory: LangModelFactory,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        self.lm_factory = lm_factory
        self.tokenizer = tokenizer
        self.num_documents_by_split: Counter[str] = Counter()
        self.num_skipped: Counter[str] = Counter()
        self._pending: list[UnigramLangModel] = []

    def _make_lang_model(self, raw: RawDocument) -> UnigramLangModel:
        lm = self.lm_factory.create_lang_model()
        if raw.counts is not None:
            lm.add_counts(raw.counts)
        if raw.text:
            if self.tokenizer is None:
                from ._tokenizer import Tokenizer

                self.tokenizer = Tokenizer()
            lm.add_counts(self.tokenizer.count_words(raw.text))
        return lm

    def raw_document_to_document(
        self, raw: RawDocument, note_globally: bool = False
    ) -> GridDoc:
        lm = self._make_lang_model(raw)
        if self.lm_factory.global_finished:
            lm.finish()
        else:
            if note_globally:
                self.lm_factory.note_lang_model_globally(lm)
            lm.finish_before_global()
            self._pending.append(lm)
        self.num_documents_by_split[raw.split] += 1
        return GridDoc(
            title=raw.title,
            split=raw.split,
            coord=raw.coord,
            lm=lm,
            salience=raw.salience,
        )

    def raw_documents_to_documents(
        self,
        raws: Iterable[RawDocument],
        note_globally: bool = False,
        split: str | None = None,
    ) -> Iterator[GridDoc]:
        """Convert a stream of raw documents, optionally keeping one split.

        When ``note_globally`` is set only training documents with a
        coordinate are noted and returned; the others are counted under
        ``num_skipped``.
        """
        for raw in raws:
            if split is not None and raw.split != split:
                self.num_skipped[f"not in split {split}"] += 1
                continue
            if note_globally:
                if raw.split != TRAINING:
                    self.num_skipped["non-training documents"] += 1
                    continue
                if raw.coord is None:
                    self.num_skipped["training documents without coordinates"] += 1
                    continue
            yield self.raw_document_to_document(raw, note_globally=note_globally)

    def finish_document_loading(self) -> None:
        """Finish every model held back for the global distribution."""
        for lm in self._pending:
            lm.finish_after_global()
        self._pending.clear()
