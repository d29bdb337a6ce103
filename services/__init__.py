"""Services of the awards voting system."""
