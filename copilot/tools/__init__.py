from .run_sql import tool as run_sql
from .get_schema import tool as get_schema
from .list_tables import tool as list_tables
from .create_table import tool as create_table
from .drop_table import tool as drop_table
from .read_table_data import tool as read_table_data
from .insert_table_row import tool as insert_table_row
from .update_table_row import tool as update_table_row
from .delete_table_rows import tool as delete_table_rows
from .inspect_table_schema import tool as inspect_table_schema
from .manage_rls_policies import tool as manage_rls_policies
from .manage_table_structure import tool as manage_table_structure

ALL_TOOLS = [
    run_sql,
    get_schema,
    list_tables,
    create_table,
    drop_table,
    read_table_data,
    insert_table_row,
    update_table_row,
    delete_table_rows,
    inspect_table_schema,
    manage_rls_policies,
    manage_table_structure,
]

__all__ = ["ALL_TOOLS"]
