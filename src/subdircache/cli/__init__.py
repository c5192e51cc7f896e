"""Command line interface for subdircache."""
