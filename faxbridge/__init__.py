"""faxbridge: response generation and delivery core for paper-in, paper-out fax workflows."""

__version__ = "0.1.0"
