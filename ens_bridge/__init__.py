"""Marketing Cloud ENS webhook receiver bridging to Salesforce Core."""

__version__ = "0.1.0"
