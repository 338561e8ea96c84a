from .lab import ResultNormalizer, TestCatalog
