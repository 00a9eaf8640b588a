"""Output and logging configuration.

Contains configuration classes that control where simulation tables are
written and how the package logs.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field


class OutputConfig(BaseModel):
    """Output table configuration.

    Controls where the event-loss table and the companion tables are saved.
    """

    output_directory: str = Field(default="outputs", description="Directory for saving results")
    yelt_filename: str = Field(
        default="event_loss_table.csv", description="File name of the event-loss table"
    )
    float_format: Optional[str] = Field(
        default=None, description="printf-style float format passed to pandas (None=full)"
    )
    write_companion_tables: bool = Field(
        default=True,
        description="Also write estimates, layered losses, validation, catalog and grid",
    )

    @property
    def output_path(self) -> Path:
        """Get output directory as Path object.

        Returns:
            Path object for the output directory.
        """
        return Path(self.output_directory)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Controls logging behavior including level, output destinations,
    and message formatting.
    """

    enabled: bool = Field(default=True, description="Enable logging")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path (None=no file logging)"
    )
    console_output: bool = Field(default=True, description="Log to console")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
