"""Command line interface for the SIAKAD client."""
