"""
Site Chatbot - Rule-based website assistant with an admin rule store
====================================================================

A keyword-rule chatbot for a marketing website. Administrators manage
keyword-to-response rules through a JSON API; visitors chat through the
web API or the terminal client and get the response of the
highest-priority matching rule.

License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__license__ = "MIT"
