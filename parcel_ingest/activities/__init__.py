"""Import activities.

Each activity performs a single unit of work within an import session:
- parse_import: parser output to sorted, hashed, measured preview features
- detect_duplicates: hash lookup against active parcels and within a file
- apply_import: accepted features to parcels (and auto-created farmers)
"""
