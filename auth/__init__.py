"""
auth — account authentication module.

Provides:
  • Signed access / refresh tokens (HS256 JWT)
  • bcrypt password hashing
  • Credential store gateway over the account tables
  • Login / signup / refresh account service
  • Kakao social identity linking
"""
