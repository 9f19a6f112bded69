from pathlib import Path

PACKAGE_DIR = Path(__file__).resolve().parent
REPO_ROOT = PACKAGE_DIR.parent

# Reference dictionary location and layout
DATA_DIR = REPO_ROOT / "data"
DEFAULT_DICTIONARY_FILE = DATA_DIR / "wgnd_2_0_name-gender-code.csv"
DICTIONARY_LABEL = "WIPO World Gender-Name Dictionary 2.0"
DICTIONARY_COLUMNS = {
    "name": 0,
    "code": 1,
    "gender": 2,
    "wgt": 3,
}
KEY_SEPARATOR = "\x1f"  # ASCII unit separator, never part of a name or code

# Delimited text defaults
DEFAULT_DELIMITER = ","
DEFAULT_QUOTE = '"'
TEXT_ENCODING = "utf-8-sig"  # tolerate a leading BOM on input
TEXT_ERRORS = "replace"  # undecodable bytes become U+FFFD
OUTPUT_ENCODING = "utf-8"
READ_CHUNK_SIZE = 64 * 1024
DELIMITERS_BY_EXTENSION = {
    ".csv": ",",
    ".txt": ",",
    ".tsv": "\t",
}

# Appended output columns and derived file names
GENDER_COLUMN = "Gender"
ACCURACY_COLUMN = "Accuracy"
OUTPUT_SUFFIX = "-appended"
SUMMARY_SUFFIX = "-summary.txt"

# Summary report text
REPORT_TITLE = "GnE Results"
REPORT_DATE_FORMAT = "{date:%B} {date.day}, {date.year}"
SUMMARY_SCHEMA_PATH = PACKAGE_DIR / "schemas" / "summary_report.schema.json"

# Dictionary download
HEADERS = {"User-Agent": "GenderNameEstimator/1.0 (+https://roipatents.com/)"}
DOWNLOAD_TIMEOUT = 60  # Seconds per HTTP request
DOWNLOAD_CHUNK_SIZE = 1024 * 1024

# Progress and logging cadence
PROGRESS_MININTERVAL = 0.5
MISMATCH_LOG_LIMIT = 50  # mismatches logged individually before summarising
