from app.services.pipeline import DocumentPipeline


def get_pipeline() -> DocumentPipeline:
    """A pipeline per request, so HTTP sessions and clients are never shared between requests."""
    return DocumentPipeline()
