from src.providers.extraction.http_extractor import HTTPFeatureExtractor

__all__ = ["HTTPFeatureExtractor"]
