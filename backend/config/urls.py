"""
URL configuration for DocuQuery backend.
"""
from django.urls import path, include

from apps.rag.health import healthz, readyz


urlpatterns = [
    # Health check endpoints (no auth)
    path('healthz', healthz, name='healthz'),
    path('readyz', readyz, name='readyz'),

    # API routes
    path('api/rag/', include('apps.rag.urls')),
]
