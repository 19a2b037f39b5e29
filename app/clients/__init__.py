# HTTP clients for upstream collaborators.
#
#   auth_client     - identity lookup for a bearer token
#   catalog_client  - article existence / enabled checks
