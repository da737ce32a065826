"""
Core application modules.
Contains essential infrastructure components:
- db: Database configuration and connection management
- errors: Error taxonomy rendered as {"error": ...} responses
- middleware: Rate limiting and security headers
- security: Password hashing, JWT issuing/verification, claims
- session: Token transport and cross-subdomain cookies
"""
