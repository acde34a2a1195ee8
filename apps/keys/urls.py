"""URL routing for key custody."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter  # type: ignore

from .views import KeyTransactionViewSet, KeyViewSet

router = DefaultRouter()
router.register(r"keys", KeyViewSet, basename="key")
router.register(r"key-transactions", KeyTransactionViewSet, basename="key-transaction")

urlpatterns = router.urls
