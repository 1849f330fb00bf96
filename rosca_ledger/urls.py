from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),

    path('contributions/', include('apps.core.contributions.urls')),
    path('loans/', include('apps.core.loans.urls')),
    path('notifications/', include('apps.core.notifications.urls')),
    path('dashboard/', include('apps.core.dashboard.urls')),
]
