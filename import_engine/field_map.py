"""
import_engine.field_map - Goodreads export column names and shelf labels.
"""

TITLE       = "Title"
AUTHOR      = "Author"
ISBN10      = "ISBN"
ISBN13      = "ISBN13"
MY_RATING   = "My Rating"
DATE_READ   = "Date Read"
DATE_ADDED  = "Date Added"
SHELF       = "Exclusive Shelf"

# The envelope is rejected when any of these is absent from the header row
REQUIRED_HEADERS: tuple[str, ...] = (
    TITLE, AUTHOR, ISBN10, ISBN13, MY_RATING, DATE_READ, DATE_ADDED, SHELF,
)

SHELF_CURRENTLY_READING = "currently-reading"
SHELF_READ              = "read"
SHELF_TO_READ           = "to-read"

# Goodreads writes dates as YYYY/MM/DD
DATE_FORMAT = "%Y/%m/%d"

UNKNOWN_TITLE  = "Unknown title"
UNKNOWN_AUTHOR = "Unknown author"
