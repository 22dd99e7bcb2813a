"""
Identity for the marketplace: who the actors are.

Components:
    - User: email-based account carrying a marketplace role
    - ProProfile: the professional that orders and bookings are made with
    - Role permissions for DRF views (IsClient, IsPro, IsMarketplaceAdmin)

Login and token issuance come from simplejwt; this app only owns the models.
"""
