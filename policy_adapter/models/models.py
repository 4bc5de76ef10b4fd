"""SQLAlchemy table definition for stored policy rules."""
from sqlalchemy import Column, Integer, String, MetaData, Table

# Fixed-width row: a rule carries at most six positional values
MAX_RULE_VALUES = 6
VALUE_COLUMNS = tuple(f"v{i}" for i in range(MAX_RULE_VALUES))

# Column order used for every select: (p_type, v0..v5)
RULE_COLUMNS = ("p_type",) + VALUE_COLUMNS


# One row per policy rule.
# Fields:
# 1. id: auto-increment primary key, assigned by the store and never reused
# 2. p_type: the rule type tag (p, p2, g, g2, ...)
# 3. v0..v5: positional rule values, all nullable
def build_rule_table(metadata: MetaData, name: str = "casbin_rule") -> Table:
    """Declare the rule table under ``name`` on ``metadata``."""
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("p_type", String(255), nullable=True),
        *[Column(column, String(255), nullable=True) for column in VALUE_COLUMNS],
        sqlite_autoincrement=True,  # keeps ids from being reused after deletes
    )
