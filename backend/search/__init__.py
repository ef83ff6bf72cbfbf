"""
Relevance search over the catalog.

Responsibilities:
- Validate and tokenize a free-text query.
- Pre-filter one catalog collection to rows loosely matching any token.
- Score candidates with fixed per-field weights and drop zero scores.
- Sort by score (stable on catalog order), paginate, and add display fields.
"""
