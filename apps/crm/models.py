from django.conf import settings
from django.db import models


class Account(models.Model):
    name = models.CharField(max_length=100)
    industry = models.CharField(max_length=50, blank=True, default="")
    rating = models.CharField(max_length=20, blank=True, default="")
    is_deleted = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="+",
    )
    created_date = models.DateTimeField(auto_now_add=True)
    last_modified_date = models.DateTimeField(auto_now=True)

    objects = models.Manager()

    def __str__(self):
        """String for representing the Model object."""
        return str(self.name)


class Campaign(models.Model):
    STATUS = (
        ('planned', 'Planned'),
        ('active', 'Active'),
        ('completed', 'Completed'),
    )

    name = models.CharField(max_length=100)
    status = models.CharField(max_length=10, choices=STATUS, default='planned')
    budget = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    objects = models.Manager()

    def __str__(self):
        return str(self.name)


class Opportunity(models.Model):
    STAGE = (
        ('prospecting', 'Prospecting'),
        ('negotiation', 'Negotiation'),
        ('closed_won', 'Closed Won'),
        ('closed_lost', 'Closed Lost'),
    )

    name = models.CharField(max_length=120)
    stage = models.CharField(max_length=20, choices=STAGE, default='prospecting')
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.CASCADE, related_name="opportunities"
    )
    campaign = models.ForeignKey(
        Campaign, null=True, blank=True, on_delete=models.SET_NULL, related_name="opportunities"
    )
    # Maintained by the sales pipeline; never written through forms.
    expected_revenue = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True, editable=False
    )

    objects = models.Manager()

    class Meta:
        verbose_name_plural = "opportunities"

    def __str__(self):
        return str(self.name)


class Contact(models.Model):
    first_name = models.CharField(max_length=50, blank=True, default="")
    last_name = models.CharField(max_length=50)
    email = models.EmailField(blank=True, default="")
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.CASCADE, related_name="contacts"
    )

    objects = models.Manager()

    def __str__(self):
        return f"{self.first_name} {self.last_name}".strip()
