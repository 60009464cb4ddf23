"""csv2table: import delimited text files into matching MySQL tables."""

__version__ = "0.3.0"
