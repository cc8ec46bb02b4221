"""Schedule spreadsheet -> daily mileage route import tool."""

__version__ = "0.3.0"
