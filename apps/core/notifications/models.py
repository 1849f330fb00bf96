from django.conf import settings
from django.db import models


class Notification(models.Model):
    TYPE_PAYMENT = 'payment'
    TYPE_LOAN = 'loan'
    TYPE_PERIOD = 'period'
    TYPE_ANNOUNCEMENT = 'announcement'
    TYPE_CHOICES = (
        (TYPE_PAYMENT, 'Payment'),
        (TYPE_LOAN, 'Loan'),
        (TYPE_PERIOD, 'Contribution Period'),
        (TYPE_ANNOUNCEMENT, 'Announcement'),
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
    )
    title = models.CharField(max_length=150)
    message = models.TextField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_PAYMENT)
    link = models.CharField(max_length=255, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'is_read'], name='notification_user_read_idx'),
            models.Index(fields=['user', '-created_at'], name='notification_user_created_idx'),
        ]

    def __str__(self):
        return f"{self.title} -> {self.user_id}"
