"""
AI Overview Exposure Checker

Checks which of a domain's ranking keywords trigger Google's AI Overview:
1. Validates and normalizes the submitted domain
2. Fetches ranked keywords from the DataForSEO API
3. Scores keywords by AI Overview risk
4. Stores scans, domain stats and keywords
5. Maintains global platform statistics
"""

__version__ = "0.2.0"
