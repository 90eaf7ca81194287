"""Authentication and authorization.

Learn: Viewers never log in to the EBS directly. Twitch signs a JWT for
the extension panel and we verify it with the extension secret. Admin
routes use a shared key instead.
"""
