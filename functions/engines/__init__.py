"""QuoteSmith engines.

This package contains:
- conversation_engine: slot-filling chat that collects project details
- adaptive_learning_engine: learns from estimates, recommends for new ones
- project_catalog: per project type keywords, questions and pricing
- information_extractor, dialogue_state, response_builder, estimate_builder
- contractor_profile: derived contractor profile view
"""
