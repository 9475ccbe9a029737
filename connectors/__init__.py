"""
connectors — OAuth integration with the social sign-in provider.

Provides:
  • Kakao authorization URL, code → token exchange, profile lookups
  • Fernet encryption of provider tokens at rest
"""
