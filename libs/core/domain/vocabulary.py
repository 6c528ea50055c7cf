from dataclasses import dataclass
from typing import Mapping

from libs.core.domain.entities import PERSON_CLASS
from libs.core.domain.errors import VocabularyError


@dataclass(frozen=True)
class PpeVocabulary:
    """Upstream label table and required subset for one PPE schema."""

    name: str
    label_map: Mapping[str, str]
    required: frozenset[str]

    def __post_init__(self) -> None:
        classes = self.classes
        if PERSON_CLASS in classes:
            raise VocabularyError("person cannot be a PPE class")
        unknown = self.required - set(classes)
        if unknown:
            raise VocabularyError(
                f"required classes not in vocabulary: {sorted(unknown)}"
            )

    @property
    def classes(self) -> tuple[str, ...]:
        ordered: list[str] = []
        for canonical in self.label_map.values():
            if canonical not in ordered:
                ordered.append(canonical)
        return tuple(ordered)

    def canonical_class(self, label: str | None) -> str | None:
        if not label:
            return None
        return self.label_map.get(label.strip().lower())


SIX_CLASS_VOCABULARY = PpeVocabulary(
    name="six_class",
    label_map={
        "hat": "hat",
        "mask": "mask",
        "gloves": "gloves",
        "goggles": "glasses",
        "boots": "boots",
        "hearing": "hearing",
    },
    required=frozenset({"mask", "glasses", "hearing"}),
)

FIVE_CLASS_VOCABULARY = PpeVocabulary(
    name="five_class",
    label_map={
        "mask": "mask",
        "gloves": "gloves",
        "goggles": "goggles",
        "coverall": "coverall",
        "face_shield": "face_shield",
    },
    required=frozenset({"mask", "goggles"}),
)

BUILTIN_VOCABULARIES = {
    SIX_CLASS_VOCABULARY.name: SIX_CLASS_VOCABULARY,
    FIVE_CLASS_VOCABULARY.name: FIVE_CLASS_VOCABULARY,
}


def get_vocabulary(name: str) -> PpeVocabulary:
    try:
        return BUILTIN_VOCABULARIES[name]
    except KeyError as error:
        raise VocabularyError(f"unknown vocabulary: {name}") from error
