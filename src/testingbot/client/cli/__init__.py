"""Command line interface for the TestingBot CLI."""
