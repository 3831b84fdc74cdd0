from .classifier import FeedbackClassifier, rule_based_classification
from .embedder import TextEmbedder
from .intelligence import Analysis, IntelligenceService

__all__ = ['FeedbackClassifier', 'rule_based_classification', 'TextEmbedder', 'Analysis', 'IntelligenceService']
