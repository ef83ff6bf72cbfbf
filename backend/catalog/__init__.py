"""
Catalog layer.

Responsibilities:
- Define the Restaurant, Menu, Dish and Product records.
- Keep the catalog in memory, one pandas DataFrame per collection.
- Generate unique slugs and reject unresolvable slug cross references on write.
- Serve lookups by id / slug and filtered, paginated listings.
"""
