from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class IngestionConfig:
    """
    Configuration for the name catalog ingestion pipeline.
    """

    raw_csv: Path = Path("namerater/data/raw/names_raw.csv")
    processed_data_dir: Path = Path("namerater/data/processed")
    processed_filename: str = "names.csv"
    max_meaning_tags: int = 5

    @property
    def processed_path(self) -> Path:
        return self.processed_data_dir / self.processed_filename


DEFAULT_INGESTION_CONFIG = IngestionConfig()
