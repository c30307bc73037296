"""Writes the stored filename onto the owning database record."""

from __future__ import annotations

import logging

from sqlalchemy import bindparam, column, table, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from file_uploader.errors import DatabaseError, RecordNotFoundError

logger = logging.getLogger(__name__)


class RecordUpdater:
    """
    Executes ``UPDATE <table> SET <column> = :filename WHERE <identifier> = :identifier``.

    Table and column names come from trusted configuration and are quoted by
    SQLAlchemy; both values are bound parameters.
    """

    def __init__(self, table_name: str, column_name: str, identifier_column: str) -> None:
        schema = None
        if "." in table_name:
            schema, table_name = table_name.split(".", 1)
        self.target = table(
            table_name,
            column(column_name),
            column(identifier_column),
            schema=schema,
        )
        self.column_name = column_name
        self.identifier_column = identifier_column
        self.statement = (
            update(self.target)
            .where(self.target.c[identifier_column] == bindparam("identifier"))
            .values({column_name: bindparam("filename")})
        )

    def update(self, db: Session, filename: str, identifier_value: object) -> int:
        """
        Run the update and commit.

        Returns the number of affected rows. Raises RecordNotFoundError when
        no row matched and DatabaseError when execution fails.
        """
        try:
            result = db.execute(
                self.statement,
                {"filename": filename, "identifier": identifier_value},
            )
            if result.rowcount == 0:
                db.rollback()
                raise RecordNotFoundError(
                    f"No record found where {self.identifier_column} = {identifier_value}."
                )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DatabaseError(
                "Failed to update database with file information."
            ) from exc

        logger.info(
            "record_updated table=%s column=%s identifier=%s rows=%d",
            self.target.fullname,
            self.column_name,
            identifier_value,
            result.rowcount,
        )
        return result.rowcount
