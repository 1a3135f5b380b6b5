#!/usr/bin/env python3
"""
Invoice Memory Engine - Main Entry Point

Usage:
    python main.py process data/invoices_extracted.json --index 1
    python main.py inspect MEMORY_ID
    python main.py search "Parts AG"
"""

import sys

from invoice_memory.cli import main


if __name__ == "__main__":
    sys.exit(main())
