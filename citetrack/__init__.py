"""
AI Answer Citation Tracker

This package tracks which web sources an AI answer engine cites for client
queries, categorizes the cited domains, and aggregates the results per client
with SQLAlchemy-backed storage.
"""

__version__ = "0.1.0"

# Analysis
from citetrack.analyze import (
    AnalysisResult,
    BatchItemResult,
    BatchResult,
    SequentialBatch,
    analyze_batch,
    analyze_query,
)

# Categorization
from citetrack.categorize import CategorizedCitation, categorize_citations, resolve_category

# Configuration
from citetrack.config import Settings

# Cost estimation
from citetrack.costs import MODEL_PRICING, ModelPricing, estimate_cost
from citetrack.domains import extract_domain, parent_domain

# Errors
from citetrack.errors import (
    ForbiddenError,
    NotFoundError,
    StorageError,
    TrackerError,
    UpstreamError,
    ValidationError,
)

# Core models
from citetrack.models import Category, Citation, Client, DomainTag, Query, Run, TagSource

# Answer engine
from citetrack.perplexity_client import AnswerResult, PerplexityClient

# Tag store
from citetrack.tags import TagUpdate, add_domain_tag, delete_domain_tag, recategorize_unknown_citations

__all__ = [
    # Version
    "__version__",
    # Models
    "Client",
    "Query",
    "Run",
    "Citation",
    "DomainTag",
    "Category",
    "TagSource",
    # Config
    "Settings",
    # Domains
    "extract_domain",
    "parent_domain",
    # Categorization
    "CategorizedCitation",
    "categorize_citations",
    "resolve_category",
    # Tags
    "TagUpdate",
    "add_domain_tag",
    "delete_domain_tag",
    "recategorize_unknown_citations",
    # Costs
    "MODEL_PRICING",
    "ModelPricing",
    "estimate_cost",
    # Analysis
    "AnalysisResult",
    "BatchItemResult",
    "BatchResult",
    "SequentialBatch",
    "analyze_batch",
    "analyze_query",
    # Answer engine
    "AnswerResult",
    "PerplexityClient",
    # Errors
    "TrackerError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "UpstreamError",
    "StorageError",
]
