# buildsched/database.py
import logging

from sqlalchemy import (
    Boolean, Column, Float, ForeignKey, Integer, MetaData, String, Table, Text, create_engine
)
from sqlalchemy.pool import StaticPool

from buildsched.config import settings

logger = logging.getLogger(__name__)

metadata = MetaData()

projects_table = Table(
    "projects",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_name", String),
    Column("created_at", String),
    Column("start_date", String, nullable=True),
    Column("end_date", String, nullable=True),
)

estimates_table = Table(
    "estimates",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, ForeignKey("projects.id")),
    Column("estimate_number", String),
    Column("status", String),  # "draft", "sent", "approved", "rejected"
    Column("created_at", String),
)

# Cost fields belong to the estimating side; the scheduling columns are the
# only ones written back by this package.
estimate_line_items_table = Table(
    "estimate_line_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("estimate_id", String, ForeignKey("estimates.id")),
    Column("category", String),
    Column("description", String),
    Column("quantity", Float),
    Column("cost_per_unit", Float),
    Column("total_cost", Float),
    Column("sort_order", Integer, default=0),
    Column("scheduled_start_date", String, nullable=True),
    Column("scheduled_end_date", String, nullable=True),
    Column("duration_days", Integer, nullable=True),
    Column("dependencies", Text, nullable=True),
    Column("is_milestone", Boolean, default=False),
    Column("schedule_notes", Text, nullable=True),
)

change_orders_table = Table(
    "change_orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, ForeignKey("projects.id")),
    Column("change_order_number", String),
    Column("status", String),
    Column("created_at", String),
)

change_order_line_items_table = Table(
    "change_order_line_items",
    metadata,
    Column("id", String, primary_key=True),
    Column("change_order_id", String, ForeignKey("change_orders.id")),
    Column("category", String),
    Column("description", String),
    Column("quantity", Float),
    Column("cost_per_unit", Float),
    Column("total_cost", Float),
    Column("sort_order", Integer, default=0),
    Column("scheduled_start_date", String, nullable=True),
    Column("scheduled_end_date", String, nullable=True),
    Column("duration_days", Integer, nullable=True),
    Column("dependencies", Text, nullable=True),
    Column("is_milestone", Boolean, default=False),
    Column("schedule_notes", Text, nullable=True),
)

correlations_table = Table(
    "expense_line_item_correlations",
    metadata,
    Column("id", String, primary_key=True),
    Column("project_id", String, ForeignKey("projects.id")),
    Column("line_item_id", String),
    Column("expense_id", String, nullable=True),
    Column("amount", Float),
    Column("correlation_type", String, nullable=True),
)

ui_preferences_table = Table(
    "ui_preferences",
    metadata,
    Column("key", String, primary_key=True),
    Column("value", Text),
    Column("updated_at", String),
)

LINE_ITEM_TABLES = {
    "estimate_line_items": estimate_line_items_table,
    "change_order_line_items": change_order_line_items_table,
}


def init_db(db_url: str = None):
    if not db_url:
        db_url = settings.get_database_url()
    logger.info("Initializing database at %s", db_url)
    kwargs = {}
    if db_url.startswith("sqlite"):
        # Debounced writes run on timer threads.
        kwargs["connect_args"] = {"check_same_thread": False}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(db_url, **kwargs)
    metadata.create_all(engine)
    return engine
