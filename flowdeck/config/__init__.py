# flowdeck/config package
# Runtime settings (runtime.yaml + env overrides), tool policy storage and
# workflow definition loading.
