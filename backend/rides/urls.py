from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    path('', views.rides, name='rides'),
    path('estimate/', views.estimate_route, name='estimate'),
    path('drivers-nearby/', views.nearby_drivers, name='drivers-nearby'),
    path('<int:ride_id>/cancel/', views.cancel_ride, name='cancel-ride'),
    path('<int:ride_id>/complete/', views.complete_ride, name='complete-ride'),
]
