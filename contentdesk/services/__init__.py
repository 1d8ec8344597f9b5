# Services package.
#
# Each module exposes async functions that own the business rules and
# database access for one area of the content backend:
#
#   article_service   write pipeline (sanitize, slug, publish), reads, assets
#   listing_service   filtered / sorted / paginated article queries
#   stats_service     dashboard counts and publication windows
#   category_service  category CRUD and id-or-slug resolution
#   contact_service   contact form intake, throttle, notifications
#   user_service      author directory
#
# All service functions accept an AsyncSession as their first argument and
# flush without committing; the ``get_db`` dependency owns the transaction.
