from dispatch.models import EvidenceType, LoadingStatus

ALLOWED_TRANSITIONS: dict[LoadingStatus, list[LoadingStatus]] = {
    LoadingStatus.WAITING: [LoadingStatus.IN_PROGRESS, LoadingStatus.CANCELLED],
    LoadingStatus.IN_PROGRESS: [LoadingStatus.COMPLETED, LoadingStatus.CANCELLED],
    LoadingStatus.COMPLETED: [],
    LoadingStatus.CANCELLED: [],
}

# Без этих фото погрузку нельзя завершить
REQUIRED_EVIDENCE = (EvidenceType.BEFORE, EvidenceType.AFTER, EvidenceType.INVOICE)

IMAGE_EXTENSIONS: frozenset[str] = frozenset(("jpg", "jpeg", "png", "webp", "heic"))
INVOICE_EXTENSIONS: frozenset[str] = IMAGE_EXTENSIONS | {"pdf"}


def can_transition(current: LoadingStatus, new: LoadingStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, [])


def is_terminal(status: LoadingStatus) -> bool:
    return not ALLOWED_TRANSITIONS.get(status)


def missing_evidence(photo_counts: dict[str, int]) -> list[EvidenceType]:
    return [t for t in REQUIRED_EVIDENCE if photo_counts.get(t.value, 0) < 1]


def allowed_extensions(evidence_type: EvidenceType) -> frozenset[str]:
    if evidence_type == EvidenceType.INVOICE:
        return INVOICE_EXTENSIONS
    return IMAGE_EXTENSIONS
