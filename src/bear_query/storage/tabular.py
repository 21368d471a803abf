"""Tabular results for ad-hoc SQL, as pandas DataFrames.

pandas infers each column's dtype from the values SQLite hands back:
integer columns stay ``int64``, columns mixing integers and reals become
``float64``, text and BLOB columns are ``object``. A NULL in an integer
column turns the column into ``float64`` with NaN.
"""
import pandas as pd
from sqlalchemy.engine import Connection

from bear_query.exceptions import QueryMaterializationError


def check_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Reject frames whose columns cannot be addressed by name.

    Raises:
        QueryMaterializationError: If two columns share a name.
    """
    duplicated = frame.columns[frame.columns.duplicated()]
    if len(duplicated):
        name = str(duplicated[0])
        raise QueryMaterializationError(
            f"Duplicate column name '{name}' in query result; alias it",
            column=name,
        )
    return frame


def read_frame(connection: Connection, sql: str) -> pd.DataFrame:
    """Run ``sql`` on ``connection`` and materialize every row into a DataFrame.

    The statement text goes to the driver as is, so ``:name`` inside caller
    SQL is never treated as a bind parameter.
    """
    return check_columns(pd.read_sql_query(sql, connection))
