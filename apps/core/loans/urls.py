from django.urls import path

from .views import loan_delete, loan_detail, loan_issue, loan_repayment_create

urlpatterns = [
    path('', loan_issue, name='loan_issue'),
    path('<int:pk>/', loan_detail, name='loan_detail'),
    path('<int:pk>/repayments/', loan_repayment_create, name='loan_repayment_create'),
    path('<int:pk>/delete/', loan_delete, name='loan_delete'),
]
