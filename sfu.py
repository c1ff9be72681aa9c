#!/usr/bin/env python
"""
Salesforce Utility CLI - Main Entry Point

SOQL queries, REST API calls, change tracking, Bulk API 2.0 jobs and
anonymous Apex from the command line.

Usage:
    python sfu.py -u me@example.com                         # Interactive mode
    python sfu.py query -q "SELECT Id FROM Account LIMIT 5"
    python sfu.py bulk -s Contact -o insert -d contacts.csv

For detailed help:
    python sfu.py --help
"""
import sys
from sfu.cli import main

if __name__ == "__main__":
    sys.exit(main())
