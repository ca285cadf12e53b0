"""
RAG URL routing.
"""
from django.urls import path

from apps.rag.views import QueryView, UsageView

urlpatterns = [
    path('query', QueryView.as_view(), name='rag-query'),
    path('usage', UsageView.as_view(), name='rag-usage'),
]
