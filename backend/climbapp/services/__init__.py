# Services package init
"""
ClimbApp Backend — Services Layer
=================================

What:  Business logic between the route handlers (HTTP) and the database /
       Google Cloud.
How:   Module-level singletons; handlers pass the request's database session
       into every call.

Service Inventory:
    - ImageService: base64 decoding and image validation
    - ImageRecognitionService: Vision Product Search + Cloud Storage adapter
    - SiteService: climbing site aggregate CRUD
    - RouteService: routes within a site, target registration
    - QueryService: photo → climbing route lookup
"""
