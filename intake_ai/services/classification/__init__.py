from intake_ai.services.classification.document_classifier import DocumentClassifier

__all__ = ["DocumentClassifier"]
