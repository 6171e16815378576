from django.urls import path

from . import views

urlpatterns = [
    path("", views.PaymentListCreateView.as_view(), name="payment-list-create"),
    path("me/", views.MyPaymentsView.as_view(), name="payment-list-mine"),
    # Chapa checkout and webhook / polling verification
    path("chapa/init/", views.ChapaInitView.as_view(), name="chapa-init"),
    path("chapa/verify/", views.ChapaVerifyView.as_view(), name="chapa-verify"),
    # Instructor payouts (admin)
    path("unpaid-payouts/", views.UnpaidPayoutsView.as_view(), name="unpaid-payouts"),
    path("<int:pk>/mark-paid/", views.MarkPaidView.as_view(), name="mark-paid"),
    path("<int:pk>/", views.PaymentDetailView.as_view(), name="payment-detail"),
]
