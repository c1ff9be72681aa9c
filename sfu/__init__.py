"""
sfu - Salesforce utility CLI

SOQL queries, REST calls, anonymous Apex, change tracking and Bulk API 2.0
ingest jobs from the command line.
"""
__version__ = '1.0.0'
