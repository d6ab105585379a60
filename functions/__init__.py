"""QuoteSmith - Construction Estimate Core.

This package contains the Python core of the QuoteSmith estimating
platform: conversational project-detail extraction and per-contractor
adaptive learning of prices, labor rates and project patterns.

Architecture:
- ConversationEngine: slot-filling chat over an in-memory session repository
- AdaptiveLearningEngine: learning and recommendations over a KnowledgeStore
- KnowledgeStore backends: in-memory, JSON files, Firestore
"""

__version__ = "1.0.0"
