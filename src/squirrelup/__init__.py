"""SquirrelUp - directory backups to Backblaze B2 over the S3 protocol."""

__version__ = "0.1.0"
