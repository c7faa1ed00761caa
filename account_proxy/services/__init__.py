# Services package.
#
#   user_service  - UserAccessor: cached reads, enrichment and writes for
#                   user accounts held by the remote account API
#
# Services receive their collaborators (API client, cache segment,
# mailing-list client) at construction; the router layer builds them per
# request through the dependencies in ``account_proxy.dependencies``.
