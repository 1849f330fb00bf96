from django.urls import path

from .views import contributor_dashboard, group_summary

urlpatterns = [
    path('contributor/', contributor_dashboard, name='contributor_dashboard'),
    path('groups/<int:pk>/', group_summary, name='group_summary'),
]
