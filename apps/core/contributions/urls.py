from django.urls import path

from .views import (
    payment_delete,
    payment_edit,
    payment_record,
    payment_update_status,
    period_create,
    period_detail,
    period_finalize,
    period_recompute,
    period_update_details,
)

urlpatterns = [
    path('periods/', period_create, name='period_create'),
    path('periods/<int:pk>/', period_detail, name='period_detail'),
    path('periods/<int:pk>/finalize/', period_finalize, name='period_finalize'),
    path('periods/<int:pk>/recompute/', period_recompute, name='period_recompute'),
    path('periods/<int:pk>/details/', period_update_details, name='period_update_details'),

    path('payments/', payment_record, name='payment_record'),
    path('payments/<int:pk>/status/', payment_update_status, name='payment_update_status'),
    path('payments/<int:pk>/edit/', payment_edit, name='payment_edit'),
    path('payments/<int:pk>/delete/', payment_delete, name='payment_delete'),
]
